"""Push standings updates to the live scoreboard websocket group."""

from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

SCOREBOARD_GROUP = "sportsday_scoreboard"


def standings_payload(event_id: int | None = None) -> Dict[str, Any]:
    from . import services

    return {
        "type": "STANDINGS",
        "event_id": event_id,
        "houses": [
            {
                "id": house.pk,
                "name": house.name,
                "color": house.color,
                "total_points": house.total_points,
                "rank": house.rank,
            }
            for house in services.house_standings()
        ],
    }


def standings_changed(event_id: int | None = None) -> None:
    """Send the refreshed standings to every connected scoreboard."""

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(
            SCOREBOARD_GROUP,
            {"type": "broadcast", "event": standings_payload(event_id)},
        )
    except Exception as exc:
        logger.warning("scoreboard broadcast failed for event %s: %s", event_id, exc)
