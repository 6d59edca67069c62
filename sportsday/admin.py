"""Admin registrations for the sportsday application."""
from django.contrib import admin

from . import models, services


@admin.register(models.Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "full_name", "role")
    list_filter = ("role",)
    search_fields = ("full_name", "user__username", "user__email")


@admin.register(models.House)
class HouseAdmin(admin.ModelAdmin):
    list_display = ("name", "color", "total_points", "captain")
    search_fields = ("name",)
    readonly_fields = ("total_points", "created_at", "updated_at")


@admin.register(models.Sport)
class SportAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "category",
        "max_participants_per_house",
        "points_first",
        "points_second",
        "points_third",
        "is_active",
    )
    list_filter = ("category", "is_active")
    search_fields = ("name",)


class EventParticipantInline(admin.TabularInline):
    model = models.EventParticipant
    extra = 0
    autocomplete_fields = ("participant",)


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("name", "sport", "scheduled_time", "location", "status")
    list_filter = ("status", "sport__category", "sport")
    search_fields = ("name", "location", "sport__name")
    inlines = [EventParticipantInline]

    def delete_model(self, request, obj):
        services.delete_event(obj)

    def delete_queryset(self, request, queryset):
        for event in queryset:
            services.delete_event(event)


@admin.register(models.Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ("full_name", "age", "house", "guardian", "is_active")
    list_filter = ("house", "is_active")
    search_fields = ("full_name", "guardian_email")

    def delete_model(self, request, obj):
        services.delete_participant(obj)

    def delete_queryset(self, request, queryset):
        for participant in queryset:
            services.delete_participant(participant)


@admin.register(models.Result)
class ResultAdmin(admin.ModelAdmin):
    list_display = ("event", "participant", "house", "position", "points_awarded", "created_at")
    list_filter = ("house", "event__sport")
    search_fields = ("participant__full_name", "event__name")
    readonly_fields = ("house", "points_awarded", "created_at")

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(models.AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("ts", "action")
    list_filter = ("action",)
    readonly_fields = ("ts", "action", "payload")
