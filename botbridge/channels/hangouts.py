"""Google Hangouts Chat channel adapter.

Event format: https://developers.google.com/hangouts/chat/reference/message-formats/events
Card format: https://developers.google.com/hangouts/chat/reference/message-formats/cards
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..bots.messages import (
    ActionType,
    BotMessage,
    BotProfile,
    PayloadType,
    postback_message,
    text_message,
)
from .base import ChannelAdapter, ChannelError, InboundReply, InvalidTokenError, NoOpEvent
from .google import CHAT_BOT_SCOPE, ChatApiClient, GoogleServiceAuth

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

# the space travels inside the user id since replies carry nothing else
SPACE_PATTERN = re.compile(r"(spaces/[\w-]+)")

POSTBACK_METHOD = "postback"
POSTBACK_PARAMETER = "postback"


class HangoutsEvent(str, Enum):
    ADDED = "ADDED_TO_SPACE"
    REMOVED = "REMOVED_FROM_SPACE"
    MESSAGE = "MESSAGE"
    CARD_CLICKED = "CARD_CLICKED"


# icons per attachment type; images are shown as the card image instead
ATTACHMENT_ICONS: dict[str, str | None] = {
    "file": "DESCRIPTION",
    "image": None,
    "video": "VIDEO_PLAY",
    "audio": "VIDEO_PLAY",
    "location": "MAP_PIN",
}

UPDATE_MESSAGE = "UPDATE_MESSAGE"


def _open_link(url: str) -> dict[str, Any]:
    return {"openLink": {"url": url}}


def _format_coordinate(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class HangoutsChatChannel(ChannelAdapter):
    channel_name = "hangouts"

    def __init__(
        self,
        verify_token: str,
        auth: GoogleServiceAuth,
        chat_api: ChatApiClient | None = None,
    ) -> None:
        self.verify_token = verify_token
        self.auth = auth
        self.chat_api = chat_api or ChatApiClient()
        if not verify_token:
            logger.warning(
                "HANGOUTS_BOT_VERIFICATION_TOKEN not configured, skipping verification"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> HangoutsChatChannel:
        auth = GoogleServiceAuth(
            settings.google_credentials_path,
            scopes=[CHAT_BOT_SCOPE],
            failure_policy=settings.auth_failure_policy,
        )
        return cls(
            verify_token=settings.verification_token,
            auth=auth,
            chat_api=ChatApiClient(timeout=settings.request_timeout),
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def receive(
        self, payload: Mapping[str, Any], reply: InboundReply
    ) -> BotMessage:
        self._validate(payload)
        event = self._handle_event(payload, reply)
        return self._to_bot_payload(event)

    def _validate(self, payload: Mapping[str, Any]) -> None:
        if not self.verify_token:
            return
        token = payload.get("token")
        if token != self.verify_token:
            raise InvalidTokenError(f"Invalid token '{token}'")

    def _handle_event(
        self, payload: Mapping[str, Any], reply: InboundReply
    ) -> Mapping[str, Any]:
        event_type = payload.get("type")
        if event_type == HangoutsEvent.CARD_CLICKED.value:
            # Chat waits for a synchronous answer to a click, while the bot
            # reply arrives later as a new message. Update the clicked card
            # in place so the click is not shown as failed.
            message = payload.get("message") or {}
            reply.acknowledge({**message, "actionResponse": {"type": UPDATE_MESSAGE}})
            return payload
        if event_type == HangoutsEvent.MESSAGE.value:
            return payload
        logger.info("Ignoring Hangouts event %s", event_type)
        raise NoOpEvent(event_type)

    def _to_bot_payload(self, event: Mapping[str, Any]) -> BotMessage:
        user = event.get("user")
        space = event.get("space")
        if not isinstance(user, Mapping) or not isinstance(space, Mapping):
            raise ChannelError("Hangouts event is missing 'user' or 'space'")
        user_name = str(user.get("name", ""))
        space_name = str(space.get("name", ""))

        names = str(user.get("displayName") or "").split()
        first_name = names[0] if names else ""
        last_name = " ".join(names[1:])

        action = event.get("action")
        if action:
            message_payload = postback_message(self._postback_value(action))
        else:
            message = event.get("message") or {}
            text = message.get("argumentText")
            if text is None:
                text = message.get("text", "")
            message_payload = text_message(str(text).strip())

        return BotMessage(
            # the user is a distinct conversation in each space
            user_id=f"{user_name}{space_name}",
            message_payload=message_payload,
            profile=BotProfile(
                platform_context=space_name,
                user_id=user_name,
                first_name=first_name,
                last_name=last_name,
                email=user.get("email"),
            ),
        )

    def _postback_value(self, action: Mapping[str, Any]) -> Any:
        parameters = action.get("parameters") or []
        if not parameters:
            raise ChannelError("Card click carries no parameters")
        parameter = next(
            (p for p in parameters if p.get("key") == POSTBACK_PARAMETER),
            parameters[0],
        )
        try:
            return json.loads(parameter.get("value") or "")
        except json.JSONDecodeError as exc:
            raise ChannelError(f"Invalid postback value: {exc}") from exc

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def respond(self, message: BotMessage) -> None:
        request_body = self._to_channel_payload(message)
        match = SPACE_PATTERN.search(message.user_id)
        if match is None:
            raise ChannelError(
                f"No Hangouts space found in user id '{message.user_id}'",
                status_code=500,
            )
        parent = match.group(1)
        credentials = await self.auth.authorize()
        logger.info("Sending message to Hangouts %s", parent)
        logger.debug("Hangouts payload: %s", json.dumps(request_body, indent=2))
        await self.chat_api.create_message(credentials, parent, request_body)
        logger.info("Sent message to Hangouts %s", parent)

    def _to_channel_payload(self, message: BotMessage) -> dict[str, Any]:
        payload = message.message_payload
        payload_type = payload.get("type")
        response: dict[str, Any] = {}

        if payload_type == PayloadType.TEXT.value:
            response["text"] = payload.get("text", "")
            # actions can only be shown on cards
            if self._has_actions(payload):
                card = self._get_card()
                self._add_card_actions(card, payload)
                response["cards"] = [card]

        elif payload_type == PayloadType.CARD.value:
            cards = []
            for item in payload.get("cards") or []:
                card = self._get_card(
                    item.get("title"),
                    item.get("description"),
                    item.get("imageUrl"),
                    item.get("url"),
                )
                self._add_card_actions(card, item)
                cards.append(card)
            if self._has_actions(payload):
                card = self._get_card()
                self._add_card_actions(card, payload)
                cards.append(card)
            response["cards"] = cards

        elif payload_type == PayloadType.ATTACHMENT.value:
            attachment = payload.get("attachment") or {}
            url = attachment.get("url")
            icon = ATTACHMENT_ICONS.get(attachment.get("type"))
            if icon and url:
                # non-image media get an icon and a link instead of the image
                card = self._get_card()
                card["sections"].append(
                    {
                        "widgets": [
                            {
                                "buttons": [
                                    {"imageButton": {"icon": icon, "onClick": _open_link(url)}},
                                    {"textButton": {"text": "OPEN", "onClick": _open_link(url)}},
                                ]
                            }
                        ]
                    }
                )
            else:
                card = self._get_card(image_url=url)
            self._add_card_actions(card, payload)
            response["cards"] = [card]

        elif payload_type == PayloadType.LOCATION.value:
            location = payload.get("location") or {}
            card = self._get_card(location.get("title"))
            key_value: dict[str, Any] = {
                "topLabel": "Location",
                "icon": ATTACHMENT_ICONS["location"],
                "content": (
                    f"{_format_coordinate(location.get('latitude'))}, "
                    f"{_format_coordinate(location.get('longitude'))}"
                ),
            }
            if location.get("url"):
                key_value["onClick"] = _open_link(location["url"])
            card["sections"].append({"widgets": [{"keyValue": key_value}]})
            self._add_card_actions(card, payload)
            response["cards"] = [card]

        else:
            raw = json.dumps(payload, indent=2)
            response["text"] = f"We received a response, but could not format it: {raw}"

        return response

    @staticmethod
    def _has_actions(payload: Mapping[str, Any]) -> bool:
        return bool(payload.get("actions") or payload.get("globalActions"))

    def _get_card(
        self,
        title: str | None = None,
        subtitle: str | None = None,
        image_url: str | None = None,
        url: str | None = None,
    ) -> dict[str, Any]:
        sections: list[dict[str, Any]] = []
        if image_url:
            image: dict[str, Any] = {"imageUrl": image_url}
            if url:
                image["onClick"] = _open_link(url)
            sections.append({"widgets": [{"image": image}]})
        card: dict[str, Any] = {"sections": sections}
        if title:
            header = {"title": title}
            if subtitle:
                header["subtitle"] = subtitle
            card["header"] = header
        return card

    def _add_card_actions(self, card: dict[str, Any], source: Mapping[str, Any]) -> None:
        """Append one button section per non-empty action list of ``source``."""

        for actions in (source.get("actions"), source.get("globalActions")):
            if not actions:
                continue
            buttons = self._actions_to_buttons(actions)
            if buttons:
                card["sections"].append({"widgets": [{"buttons": buttons}]})

    def _actions_to_buttons(self, actions: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        buttons = []
        for action in actions:
            button = self._action_to_button(action)
            if button is None:
                logger.debug("Dropping unsupported action type %s", action.get("type"))
                continue
            buttons.append({"textButton": button})
        return buttons

    def _action_to_button(self, action: Mapping[str, Any]) -> dict[str, Any] | None:
        action_type = action.get("type")
        label = action.get("label", "")
        if action_type == ActionType.POSTBACK.value:
            return {
                "text": label,
                "onClick": {
                    "action": {
                        "actionMethodName": POSTBACK_METHOD,
                        "parameters": [
                            {
                                "key": POSTBACK_PARAMETER,
                                # parameter values must be strings
                                "value": json.dumps(action.get("postback")),
                            }
                        ],
                    }
                },
            }
        if action_type == ActionType.URL.value:
            return {"text": label, "onClick": _open_link(action.get("url", ""))}
        if action_type == ActionType.CALL.value:
            return {"text": label, "onClick": _open_link(f"tel:{action.get('phoneNumber', '')}")}
        return None
