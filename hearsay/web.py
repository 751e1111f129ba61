"""Web hook handlers served over aiohttp.

A web hook is registered like any other handler, told its external
URL once the hosting mux knows it, and bound to an adapter by the
dispatch loop. Inside the request handler, context_from_request()
returns a Context carrying that adapter, from which
response_writer_from_context() builds a writer for replies.
"""

from typing import Awaitable, Callable, Optional, Protocol, Tuple, Union, runtime_checkable

import structlog
from aiohttp import web
from yarl import URL

from .context import Context
from .handler import BaseHandler
from .response import Sender, with_adapter

logger = structlog.get_logger("hearsay.web")

CONTEXT_KEY = "hearsay.context"

WebHookFunc = Callable[[web.Request], Awaitable[web.StreamResponse]]


@runtime_checkable
class WebHookHandler(Protocol):
    def describe(self) -> Tuple[str, str]:
        ...

    @property
    def url(self) -> URL:
        ...

    def set_url(self, url: Union[URL, str]) -> None:
        ...

    def set_adapter(self, adapter: Sender) -> None:
        ...

    async def serve_http(self, request: web.Request) -> web.StreamResponse:
        ...


def context_from_request(request: web.Request) -> Context:
    """The Context attached to `request` by the serving web hook."""
    ctx = request.get(CONTEXT_KEY)
    return ctx if ctx is not None else Context.background()


class BaseWebHookHandler(BaseHandler):
    """Wraps an aiohttp request handler as a WebHookHandler."""

    def __init__(self, name: str, description: str, func: WebHookFunc):
        super().__init__(name, description)
        self._func = func
        self._url = URL()
        self._adapter: Optional[Sender] = None

    @property
    def url(self) -> URL:
        return self._url

    def set_url(self, url: Union[URL, str]) -> None:
        self._url = URL(str(url))
        logger.debug("web_hook_url_set", handler=self.name, url=str(self._url))

    @property
    def adapter(self) -> Optional[Sender]:
        return self._adapter

    def set_adapter(self, adapter: Sender) -> None:
        self._adapter = adapter
        logger.debug("web_hook_adapter_set", handler=self.name, adapter=type(adapter).__name__)

    async def serve_http(self, request: web.Request) -> web.StreamResponse:
        ctx = Context.background()
        if self._adapter is not None:
            ctx = with_adapter(ctx, self._adapter)
        request[CONTEXT_KEY] = ctx
        return await self._func(request)


def new_web_hook_handler(name: str, description: str, func: WebHookFunc) -> BaseWebHookHandler:
    """Wrap the aiohttp handler `func` as a WebHookHandler."""
    return BaseWebHookHandler(name, description, func)
