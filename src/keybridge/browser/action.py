"""
Request dispatch for the browser extension.

Messages are JSON objects. ``change-public-keys`` travels in the clear and
starts a session; every other action arrives as an encrypted envelope:

  {"action": "get-logins", "message": <base64 ciphertext>, "nonce": <base64>, "clientID": "..."}

The reply to an envelope sent under nonce N is sealed under increment(N) and
carries that nonce. Error replies are never encrypted and never echo key,
nonce or ciphertext material:

  {"action": "...", "errorCode": "15", "error": "No logins found."}
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any, Dict, Optional

from .. import __version__
from ..core.models import Database, Entry
from ..core.settings import BrowserSettings
from . import DecryptionFailed, InvalidKey, NonceReuse
from .channel import SecureChannel, increment_nonce
from .matcher import CredentialMatcher

logger = logging.getLogger(__name__)

TRUE_STR = "true"
FALSE_STR = "false"


class ErrorCode(IntEnum):
    DATABASE_NOT_OPENED = 1
    CLIENT_PUBLIC_KEY_NOT_RECEIVED = 3
    CANNOT_DECRYPT_MESSAGE = 4
    ACTION_CANCELLED_OR_DENIED = 6
    CANNOT_ENCRYPT_MESSAGE = 7
    KEY_CHANGE_FAILED = 9
    INCORRECT_ACTION = 12
    EMPTY_MESSAGE_RECEIVED = 13
    NO_URL_PROVIDED = 14
    NO_LOGINS_FOUND = 15


ERROR_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.DATABASE_NOT_OPENED: "Database not opened",
    ErrorCode.CLIENT_PUBLIC_KEY_NOT_RECEIVED: "Client public key not received",
    ErrorCode.CANNOT_DECRYPT_MESSAGE: "Cannot decrypt message",
    ErrorCode.ACTION_CANCELLED_OR_DENIED: "Action cancelled or denied",
    ErrorCode.CANNOT_ENCRYPT_MESSAGE: "Message encryption failed.",
    ErrorCode.KEY_CHANGE_FAILED: "Key change was not successful",
    ErrorCode.INCORRECT_ACTION: "Incorrect action",
    ErrorCode.EMPTY_MESSAGE_RECEIVED: "Empty message received",
    ErrorCode.NO_URL_PROVIDED: "No URL provided",
    ErrorCode.NO_LOGINS_FOUND: "No logins found",
}


def entry_to_login(entry: Entry) -> Dict[str, Any]:
    """Shape of a credential inside a get-logins reply."""
    return {
        "login": entry.username,
        "name": entry.title,
        "password": entry.password,
        "uuid": entry.uuid_hex,
    }


class BrowserAction:
    """Dispatches extension messages for one peer over one SecureChannel."""

    def __init__(self, database: Optional[Database] = None,
                 settings: Optional[BrowserSettings] = None,
                 channel: Optional[SecureChannel] = None):
        self.settings = settings or BrowserSettings()
        self.matcher = CredentialMatcher(self.settings, database)
        self.channel = channel or SecureChannel()

    @property
    def database(self) -> Optional[Database]:
        return self.matcher.database

    @database.setter
    def database(self, database: Optional[Database]) -> None:
        self.matcher.database = database

    def process_client_message(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(message, dict) or not message:
            return self.error_reply("", ErrorCode.EMPTY_MESSAGE_RECEIVED)

        action = str(message.get("action") or "")
        if not action:
            return self.error_reply("", ErrorCode.INCORRECT_ACTION)

        if action == "change-public-keys":
            return self.handle_change_public_keys(message)
        return self.handle_encrypted(action, message)

    def handle_change_public_keys(self, message: Dict[str, Any]) -> Dict[str, Any]:
        action = "change-public-keys"
        nonce = message.get("nonce")
        try:
            public_key = self.channel.handshake(
                message.get("publicKey"), nonce, message.get("clientID"))
        except InvalidKey:
            logger.warning("Rejected key exchange with malformed key material")
            reply = self.error_reply(action, ErrorCode.KEY_CHANGE_FAILED)
            reply["success"] = FALSE_STR
            return reply

        return {
            "action": action,
            "version": __version__,
            "publicKey": public_key,
            "nonce": increment_nonce(nonce),
            "success": TRUE_STR,
        }

    def handle_encrypted(self, action: str, message: Dict[str, Any]) -> Dict[str, Any]:
        session = self.channel.session
        if session is None:
            return self.error_reply(action, ErrorCode.CLIENT_PUBLIC_KEY_NOT_RECEIVED)

        nonce = message.get("nonce")
        try:
            request = self.channel.decrypt_message(message.get("message"), nonce)
        except DecryptionFailed as e:
            logger.warning(f"Dropped {action} message: {e}")
            return self.error_reply(action, ErrorCode.CANNOT_DECRYPT_MESSAGE)

        client_id = message.get("clientID") or session.client_id
        if not self.settings.is_trusted(client_id):
            logger.warning(f"Refused {action} for untrusted client {client_id!r}")
            return self.error_reply(action, ErrorCode.ACTION_CANCELLED_OR_DENIED)

        inner_action = request.get("action", action)
        if inner_action != action:
            return self.error_reply(action, ErrorCode.INCORRECT_ACTION)

        if action == "get-logins":
            return self.handle_get_logins(request, nonce)
        if action == "get-databasehash":
            return self.handle_get_database_hash(request, nonce)
        return self.error_reply(action, ErrorCode.INCORRECT_ACTION)

    def handle_get_logins(self, request: Dict[str, Any], nonce: str) -> Dict[str, Any]:
        action = "get-logins"
        if self.database is None:
            return self.error_reply(action, ErrorCode.DATABASE_NOT_OPENED)

        url = request.get("url")
        if not url or not isinstance(url, str):
            return self.error_reply(action, ErrorCode.NO_URL_PROVIDED)
        submit_url = request.get("submitUrl")
        if not isinstance(submit_url, str):
            submit_url = ""

        entries = self.matcher.find_matching_entries(url, submit_url)
        if not entries:
            return self.error_reply(action, ErrorCode.NO_LOGINS_FOUND)

        logins = [entry_to_login(entry) for entry in entries]
        return self.build_response(action, {
            "count": str(len(logins)),
            "entries": logins,
            "hash": self.database.root_hash(),
        }, nonce)

    def handle_get_database_hash(self, request: Dict[str, Any], nonce: str) -> Dict[str, Any]:
        action = "get-databasehash"
        if self.database is None:
            return self.error_reply(action, ErrorCode.DATABASE_NOT_OPENED)
        return self.build_response(action, {"hash": self.database.root_hash()}, nonce)

    def build_response(self, action: str, payload: Dict[str, Any], request_nonce: str) -> Dict[str, Any]:
        """Seal ``payload`` under increment(request_nonce)."""
        nonce = increment_nonce(request_nonce)
        body = dict(payload)
        body.update({"version": __version__, "success": TRUE_STR, "nonce": nonce})
        try:
            encrypted = self.channel.encrypt_message(body, nonce)
        except (InvalidKey, NonceReuse) as e:
            logger.error(f"Could not encrypt {action} reply: {e}")
            return self.error_reply(action, ErrorCode.CANNOT_ENCRYPT_MESSAGE)
        return {"action": action, "message": encrypted, "nonce": nonce}

    @staticmethod
    def error_reply(action: str, code: ErrorCode) -> Dict[str, Any]:
        return {
            "action": action,
            "errorCode": str(int(code)),
            "error": ERROR_MESSAGES[code],
        }
