"""
MedBot — Action Catalog.

The fixed set of user-facing actions and their postback token encoding.

Token format: "action=<verb>" for menu actions, "action=<verb>_<reminder id>"
for the reminder actions (taken / delay / skip). Reminder ids are opaque here;
handlers validate them when they look the reminder up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "action="


class Verb(str, Enum):
    TAKEN = "taken"
    DELAY = "delay"
    SKIP = "skip"
    SHOW_TODAY_REMINDERS = "show_today_reminders"
    RECORD_MEDICINE = "record_medicine"
    SHOW_RECORDS = "show_records"
    SHOW_ACCOUNT = "show_account"
    CONNECT_APP = "connect_app"
    SHOW_HELP = "show_help"
    SHOW_MAIN_MENU = "show_main_menu"

    @property
    def needs_target(self) -> bool:
        return self in TARGETED_VERBS


TARGETED_VERBS = frozenset({Verb.TAKEN, Verb.DELAY, Verb.SKIP})


@dataclass(frozen=True)
class ActionToken:
    verb: Verb
    target_id: str | None = None


def encode(verb: Verb, target_id: str | None = None) -> str:
    """Build the postback data string for an action."""
    verb = Verb(verb)
    if verb.needs_target:
        if not target_id:
            raise ValueError(f"Action '{verb.value}' requires a reminder id")
        return f"{TOKEN_PREFIX}{verb.value}_{target_id}"
    if target_id is not None:
        raise ValueError(f"Action '{verb.value}' does not take a reminder id")
    return f"{TOKEN_PREFIX}{verb.value}"


def decode(token: str) -> ActionToken | None:
    """Parse postback data. Returns None for anything unrecognized."""
    if not token or not token.startswith(TOKEN_PREFIX):
        return None
    body = token[len(TOKEN_PREFIX):]

    for verb in Verb:
        if not verb.needs_target and body == verb.value:
            return ActionToken(verb)

    for verb in TARGETED_VERBS:
        marker = f"{verb.value}_"
        if body.startswith(marker) and len(body) > len(marker):
            return ActionToken(verb, body[len(marker):])

    logger.warning("Unrecognized action token: %r", token)
    return None
