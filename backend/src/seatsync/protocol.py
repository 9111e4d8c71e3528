"""JSON message models exchanged over the seat websocket.

Field names are snake_case in Python and camelCase on the wire. Both sides
parse incoming frames through a discriminated union on ``type`` so unknown or
malformed frames surface as :class:`ProtocolError`.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel


class ProtocolError(ValueError):
    """Raised when a frame cannot be decoded into a known message."""


class CamelModel(BaseModel):
    """Base model that serializes fields using camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Messages understood in both directions
# ---------------------------------------------------------------------------


class Ping(CamelModel):
    type: Literal["ping"] = "ping"


class Pong(CamelModel):
    type: Literal["pong"] = "pong"


# ---------------------------------------------------------------------------
# Client -> server
# ---------------------------------------------------------------------------


class Register(CamelModel):
    type: Literal["register"] = "register"
    user_id: str = Field(min_length=1, max_length=128)


class SelectSlot(CamelModel):
    """Seat request.

    Without ``slot_number`` the server picks the first free seat. With
    ``drag_and_drop`` and a ``target_user_id`` other than the sender it is a
    host move of that participant.
    """

    type: Literal["select_slot"] = "select_slot"
    slot_number: int | None = None
    drag_and_drop: bool = False
    target_user_id: str | None = None


class ReleaseSlot(CamelModel):
    type: Literal["release_slot"] = "release_slot"


class CameraStateChange(CamelModel):
    type: Literal["camera_state_change"] = "camera_state_change"
    enabled: bool


class KillPlayer(CamelModel):
    type: Literal["kill_player"] = "kill_player"
    target_user_id: str = Field(min_length=1)


class RevivePlayer(CamelModel):
    type: Literal["revive_player"] = "revive_player"
    target_user_id: str = Field(min_length=1)


class ResetPlayerStates(CamelModel):
    type: Literal["reset_player_states"] = "reset_player_states"


class ShuffleUsers(CamelModel):
    type: Literal["shuffle_users"] = "shuffle_users"


class RenameUser(CamelModel):
    """Host request to change the name shown for a seated participant."""

    type: Literal["rename_user"] = "rename_user"
    target_user_id: str = Field(min_length=1)
    new_name: str = Field(min_length=1, max_length=64)


class GetPlayerStates(CamelModel):
    type: Literal["get_player_states"] = "get_player_states"


ClientMessage = Annotated[
    Union[
        Register,
        SelectSlot,
        ReleaseSlot,
        CameraStateChange,
        KillPlayer,
        RevivePlayer,
        ResetPlayerStates,
        ShuffleUsers,
        RenameUser,
        GetPlayerStates,
        Ping,
        Pong,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Server -> client
# ---------------------------------------------------------------------------


class SlotAssignment(CamelModel):
    user_id: str
    slot_number: int


class SlotsUpdate(CamelModel):
    type: Literal["slots_update"] = "slots_update"
    slots: list[SlotAssignment] = Field(default_factory=list)


class CameraStatesUpdate(CamelModel):
    type: Literal["camera_states_update"] = "camera_states_update"
    camera_states: dict[str, bool] = Field(default_factory=dict)


class SlotBusyNotice(CamelModel):
    type: Literal["slot_busy"] = "slot_busy"
    slot_number: int


class SlotSelectionResult(CamelModel):
    type: Literal["slot_selection_result"] = "slot_selection_result"
    success: bool
    slot_number: int | None = None
    message: str | None = None


class PlayerStates(CamelModel):
    killed_players: dict[str, bool] = Field(default_factory=dict)


class PlayerStatesUpdate(CamelModel):
    type: Literal["player_states_update"] = "player_states_update"
    player_states: PlayerStates = Field(default_factory=PlayerStates)


class DisplayNameUpdate(CamelModel):
    type: Literal["display_name_update"] = "display_name_update"
    user_id: str
    display_name: str


class RenameSuccess(CamelModel):
    type: Literal["rename_success"] = "rename_success"
    user_id: str
    display_name: str


class OperationFailed(CamelModel):
    type: Literal["operation_failed"] = "operation_failed"
    operation: str
    message: str


class ErrorNotice(CamelModel):
    type: Literal["error"] = "error"
    detail: str


ServerMessage = Annotated[
    Union[
        SlotsUpdate,
        CameraStatesUpdate,
        SlotBusyNotice,
        SlotSelectionResult,
        PlayerStatesUpdate,
        DisplayNameUpdate,
        RenameSuccess,
        OperationFailed,
        ErrorNotice,
        Ping,
        Pong,
    ],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def _decode(raw: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProtocolError("Invalid payload") from exc
    else:
        payload = raw
    if not isinstance(payload, Mapping):
        raise ProtocolError("Payload must be an object")
    if not isinstance(payload.get("type"), str):
        raise ProtocolError("Message type is required")
    return dict(payload)


def _describe(exc: ValidationError) -> str:
    errors = exc.errors()
    if any(error.get("type") == "union_tag_invalid" for error in errors):
        return "Unsupported message type"
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid message")
    return f"{location}: {message}" if location else message


def parse_client_message(raw: str | bytes | Mapping[str, Any]) -> ClientMessage:
    """Decode a frame sent by a participant."""

    payload = _decode(raw)
    try:
        return _client_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError(_describe(exc)) from exc


def parse_server_message(raw: str | bytes | Mapping[str, Any]) -> ServerMessage:
    """Decode a frame sent by the coordination service."""

    payload = _decode(raw)
    try:
        return _server_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError(_describe(exc)) from exc


__all__ = [
    "CamelModel",
    "CameraStateChange",
    "CameraStatesUpdate",
    "ClientMessage",
    "DisplayNameUpdate",
    "ErrorNotice",
    "GetPlayerStates",
    "KillPlayer",
    "OperationFailed",
    "Ping",
    "PlayerStates",
    "PlayerStatesUpdate",
    "Pong",
    "ProtocolError",
    "Register",
    "ReleaseSlot",
    "RenameSuccess",
    "RenameUser",
    "ResetPlayerStates",
    "RevivePlayer",
    "SelectSlot",
    "ServerMessage",
    "ShuffleUsers",
    "SlotAssignment",
    "SlotBusyNotice",
    "SlotSelectionResult",
    "SlotsUpdate",
    "parse_client_message",
    "parse_server_message",
]
