"""
ChatOrchestrator — one request/response exchange with the service.

The user's message is written into the conversation before the service is
called, so it stays visible while the call is slow and survives a failure.
Nothing is rolled back: a conversation may end with an unanswered user turn.

Every failure is raised to the caller and also mirrored into the shared
error slot. There is no retry here.
"""

from __future__ import annotations

import logging
import time

from llamadeck.controller import ServiceController
from llamadeck.conversations import ConversationStore
from llamadeck.errors import EmptyResponseError, NotRunningError
from llamadeck.models import ChatRequest, ChatResponse, Message, Role

logger = logging.getLogger(__name__)

# Request-level sampling, independent of the stored ServiceConfig
CHAT_TEMPERATURE = 0.8
CHAT_TOP_P = 0.9
CHAT_MAX_TOKENS = 512


class ChatOrchestrator:
    """Composes the conversation store with the service controller."""

    def __init__(self, controller: ServiceController, store: ConversationStore):
        self.controller = controller
        self.store = store
        self._sending = 0

    @property
    def is_sending(self) -> bool:
        return self._sending > 0

    @property
    def can_send(self) -> bool:
        return self.controller.is_running and not self.is_sending

    def build_request(self, messages: list[Message]) -> ChatRequest:
        return ChatRequest(
            model=self.controller.status.model_name,
            messages=list(messages),
            temperature=CHAT_TEMPERATURE,
            top_p=CHAT_TOP_P,
            max_tokens=CHAT_MAX_TOKENS,
            stream=False,
        )

    async def send_message(self, content: str) -> ChatResponse:
        """
        Send content in the current conversation (creating one if needed)
        and append the assistant's reply.

        Raises NotRunningError, EmptyResponseError, or whatever the
        controller raised for the remote call.
        """
        if not self.controller.is_running:
            err = NotRunningError()
            self.controller.set_error(str(err))
            raise err

        conv = self.store.current or self.store.create()
        was_empty = not conv.messages

        self._sending += 1
        self.controller.clear_error()
        try:
            conv = self.store.append(conv.id, Message(Role.USER, content))
            request = self.build_request(conv.messages)

            t0 = time.monotonic()
            response = await self.controller.chat(request)
            logger.info(
                "Chat reply from '%s' in %.0fms (%d choices)",
                response.model or request.model,
                (time.monotonic() - t0) * 1000,
                len(response.choices),
            )

            if not response.choices:
                err = EmptyResponseError()
                self.controller.set_error(str(err))
                raise err

            self.store.append(conv.id, response.choices[0].message)
            if was_empty:
                self.store.retitle(conv.id, content)
            return response
        finally:
            self._sending -= 1
