"""Shared builders for sportsday tests."""

from __future__ import annotations

from types import SimpleNamespace

from django.contrib.auth import get_user_model

from sportsday import models


def make_user(username: str, role: str | None = None, **extra):
    user = get_user_model().objects.create_user(username=username, password="pass-1234", **extra)
    if role:
        models.Profile.objects.create(user=user, full_name=username.title(), role=role)
    return user


def build_sports_day(cap: int = 2) -> SimpleNamespace:
    """Two houses, one sprint event and three enrolled runners."""

    red = models.House.objects.create(name="Red", color="#DC2626")
    blue = models.House.objects.create(name="Blue", color="#2563EB")
    sport = models.Sport.objects.create(
        name="100m Sprint",
        category=models.Sport.Category.TRACK,
        max_participants_per_house=cap,
    )
    event = models.Event.objects.create(name="100m Final", sport=sport, location="Main Oval")
    ava = models.Participant.objects.create(full_name="Ava Red", age=10, house=red)
    ben = models.Participant.objects.create(full_name="Ben Blue", age=11, house=blue)
    cara = models.Participant.objects.create(full_name="Cara Red", age=10, house=red)
    for participant in (ava, ben, cara):
        models.EventParticipant.objects.create(event=event, participant=participant)
    return SimpleNamespace(
        red=red,
        blue=blue,
        sport=sport,
        event=event,
        ava=ava,
        ben=ben,
        cara=cara,
    )
