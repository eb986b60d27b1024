"""
Link status of the event-stream subscription.

Tracked by EventStreamClient, independent of pairing status.
Pairing code never writes it; it only reads it for observability.
"""
from enum import Enum

class LinkStatus(Enum):
    """
    Physical connectivity of one stream subscription.

    GAVE_UP is terminal until the subscription is re-enabled.
    """
    DOWN = "DOWN"              # Disabled or manually closed
    CONNECTING = "CONNECTING"  # Opening, or waiting on a reconnect timer
    UP = "UP"                  # Stream open and delivering
    GAVE_UP = "GAVE_UP"        # Reconnect attempts exhausted
