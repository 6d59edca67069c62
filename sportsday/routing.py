"""Channel routing for the sports day scoreboard websocket."""

from django.urls import re_path

from . import consumers

websocket_urlpatterns = [
    re_path(r"^ws/sportsday/scoreboard/$", consumers.ScoreboardConsumer.as_asgi()),
]
