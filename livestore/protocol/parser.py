"""
Protocol Parser Module

This module handles decoding of inbound records into Command objects and
encoding of Response objects into outbound records.
"""

import json
from typing import Union

from .commands import Action, Command, Response

_ACTIONS = {
    action.value: action
    for action in Action
    if action is not Action.UNKNOWN
}


class ProtocolParser:
    """
    Parser for the object store JSON protocol.

    Protocol Format:
        Request:  {"action": <action>, "key": <string>[, "value": <any>]}
        Response: {"key": <string>, "value": <any>} | {"error": <string>}

    Actions (case-sensitive):
        subscribe    {key}          -> current value, if any, then every update
        unsubscribe  {key}          -> (nothing)
        set          {key, value}   -> update broadcast to subscribers
        get          {key}          -> {key, value} (value null if never set)

    Every record is a single JSON object. Transports decide the framing
    (one WebSocket frame, or one newline-terminated line over TCP).
    """

    def parse_request(self, data: Union[str, bytes]) -> Command:
        """
        Parse one inbound record into a Command object.

        Args:
            data: Raw record text or UTF-8 bytes (surrounding whitespace
                is ignored)

        Returns:
            Command object. Malformed input (undecodable bytes, invalid
            JSON, a non-object, an unknown action, a missing or non-string
            key, a set without value) yields a command whose ``is_valid``
            is False; this method never raises.

        Examples:
            >>> parser = ProtocolParser()
            >>> cmd = parser.parse_request('{"action": "set", "key": "score", "value": 5}')
            >>> cmd.action == Action.SET
            True
            >>> cmd.key, cmd.value
            ('score', 5)
        """
        if isinstance(data, (bytes, bytearray)):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError:
                return Command(action=Action.UNKNOWN)

        raw = data.strip()
        if not raw:
            return Command(action=Action.UNKNOWN, raw=raw)

        try:
            message = json.loads(raw)
        except (ValueError, RecursionError):
            # RecursionError: nesting deeper than the decoder can follow
            return Command(action=Action.UNKNOWN, raw=raw)

        if not isinstance(message, dict):
            return Command(action=Action.UNKNOWN, raw=raw)

        name = message.get("action")
        action = _ACTIONS.get(name) if isinstance(name, str) else None
        if action is None:
            return Command(action=Action.UNKNOWN, raw=raw)

        key = message.get("key")
        if not isinstance(key, str) or not key:
            return Command(action=Action.UNKNOWN, raw=raw)

        if action == Action.SET:
            return Command(
                action=action,
                key=key,
                value=message.get("value"),
                has_value="value" in message,
                raw=raw,
            )

        return Command(action=action, key=key, raw=raw)

    def format_response(self, response: Response) -> str:
        """
        Encode a Response object as one compact JSON record.

        The returned string carries no framing; transports add their own.

        Examples:
            >>> parser = ProtocolParser()
            >>> parser.format_response(Response.update("score", 5))
            '{"key":"score","value":5}'
            >>> parser.format_response(Response.invalid_format())
            '{"error":"Invalid message format"}'
        """
        return json.dumps(response.to_dict(), separators=(",", ":"), ensure_ascii=False)
