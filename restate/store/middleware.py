"""Middleware pipeline applied around every reducer result.

A middleware link has the signature::

    link(get_payload, call_next, meta, exports) -> result

- ``get_payload()`` yields the value produced by the previous link.  For the
  first link it invokes the reducer, so a link that never calls it also
  prevents the reducer from running.
- ``call_next(value)`` validates *value* (it must be a mapping) and hands it
  to the next link.
- ``meta`` is a private copy of the ResolutionMeta for this link.
- ``exports`` is one dict shared by every link of a single resolution.

The terminal link is supplied by the Store: its commit function for fresh
invocations, or ``passthrough`` for history revisions, which must not
repeat commit bookkeeping.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from restate.domain.errors import InvalidReturnError
from restate.domain.history import ResolutionMeta
from restate.store.merge import is_mapping

logger = logging.getLogger(__name__)

Producer = Callable[[], Any]
Next = Callable[[Any], Any]
Middleware = Callable[[Producer, Next, ResolutionMeta, dict], Any]


def passthrough(get_payload: Producer, call_next: Next, meta: ResolutionMeta, exports: dict) -> Any:
    """Terminal link for revisions: forward the delta unchanged."""
    return call_next(get_payload())


class MiddlewarePipeline:
    """An ordered, immutable chain of middleware links."""

    def __init__(self, middleware: Iterable[Middleware] | None = None) -> None:
        links = list(middleware or [])
        for link in links:
            if not callable(link):
                raise TypeError(f"middleware must be callable, got {link!r}")
        self._links: tuple[Middleware, ...] = tuple(links)

    def __len__(self) -> int:
        return len(self._links)

    def __iter__(self):
        return iter(self._links)

    def run(self, produce: Producer, meta: ResolutionMeta, terminal: Middleware) -> Any:
        """Run *produce* through every link and finally through *terminal*.

        Returns whatever the first link returns.  When a value falls off the
        end of the chain (the terminal link called ``call_next``), that value
        is what ``call_next`` returns.
        """
        links = (*self._links, terminal)
        exports: dict = {}

        def next_after(position: int) -> Next:
            def call_next(value: Any) -> Any:
                if not is_mapping(value):
                    raise InvalidReturnError(
                        f"middleware link {position} for '{meta.action_name}' "
                        f"returned {type(value).__name__}, expected a mapping"
                    )
                following = position + 1
                if following >= len(links):
                    return value
                return links[following](
                    lambda: value, next_after(following), meta.model_copy(deep=True), exports
                )

            return call_next

        return links[0](produce, next_after(0), meta.model_copy(deep=True), exports)


# ── Stock middleware ─────────────────────────────────────────────────────────

def exception_handler(on_error: Callable[[Exception, ResolutionMeta], Any] | None = None) -> Middleware:
    """Build an error-boundary link; install it first to trap reducer failures.

    The failing resolution is dropped (no history entry); *on_error* is called
    with the exception and the resolution's metadata.  Without a handler the
    failure is logged at WARNING.
    """

    def handle_exceptions(get_payload: Producer, call_next: Next, meta: ResolutionMeta, exports: dict) -> Any:
        try:
            return call_next(get_payload())
        except Exception as exc:
            if on_error is None:
                logger.warning(
                    "Resolution of '%s' (guid=%s) failed: %r",
                    meta.action_name,
                    meta.guid,
                    exc,
                )
            else:
                on_error(exc, meta)
            return None

    return handle_exceptions


def log_meta(get_payload: Producer, call_next: Next, meta: ResolutionMeta, exports: dict) -> Any:
    """Log every resolution passing through the pipeline at DEBUG."""
    logger.debug(
        "%s '%s' at index %d (reducer=%d, guid=%s)",
        meta.operation.value,
        meta.action_name,
        meta.index,
        meta.reducer_position,
        meta.guid,
    )
    return call_next(get_payload())

