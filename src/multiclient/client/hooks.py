"""Pre-request hook types, runner, and stock hooks.

Two kinds of hooks run before a request is sent:

* :data:`DescriptorHook` -- receives the mutable
  :class:`~multiclient.client.request.RequestDescriptor` before it is
  turned into an :class:`httpx.Request`. The multi-client's early hooks,
  the per-call hooks and the multi-client's late hooks run in that order.
* :data:`ImmediateHook` -- receives the materialised :class:`httpx.Request`
  after query parameters and headers have been applied, so it sees the
  final wire shape (including headers httpx adds itself).

A hook aborts the request by raising. :class:`HookRunner` wraps anything that
is not already a :class:`~multiclient.exceptions.MultiClientError` in a
:class:`~multiclient.exceptions.HookError`, so the retry driver treats it as
a failed attempt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, TypeVar

import httpx

from multiclient.exceptions import HookError, MultiClientError

if TYPE_CHECKING:
    from multiclient.client.request import RequestDescriptor

DescriptorHook = Callable[["RequestDescriptor"], None]
ImmediateHook = Callable[[httpx.Request], None]

T = TypeVar("T")


class HookRunner(Generic[T]):
    """Executes hooks in order against one target.

    The runner holds a snapshot of the hook list taken at creation time.

    Args:
        hooks: Ordered hooks; each receives the output of the previous one
            through the shared mutable target.
    """

    def __init__(self, hooks: Iterable[Callable[[T], Any]]) -> None:
        self._hooks = list(hooks)

    def __len__(self) -> int:
        return len(self._hooks)

    def run(self, target: T) -> T:
        """Run every hook against *target* and return it.

        Raises:
            HookError: If a hook raises anything other than a
                :class:`~multiclient.exceptions.MultiClientError`.
        """
        for hook in self._hooks:
            try:
                hook(target)
            except MultiClientError:
                raise
            except Exception as exc:
                name = getattr(hook, "__name__", repr(hook))
                raise HookError(f"Pre-request hook {name} failed: {exc}") from exc
        return target


# ------------------------------------------------------------------ #
# Stock descriptor hooks
# ------------------------------------------------------------------ #


def set_header(name: str, value: str) -> DescriptorHook:
    """Return a hook that sets header *name* to *value*, replacing any case variant."""

    def _hook(descriptor: RequestDescriptor) -> None:
        descriptor.headers[name] = value

    _hook.__name__ = f"set_header({name})"
    return _hook


def set_query(name: str, value: Any) -> DescriptorHook:
    """Return a hook that sets query parameter *name* to *value*."""

    def _hook(descriptor: RequestDescriptor) -> None:
        descriptor.query[name] = value

    _hook.__name__ = f"set_query({name})"
    return _hook


def bearer_token(token: str) -> DescriptorHook:
    """Return a hook that sends ``Authorization: Bearer <token>``."""
    return set_header("Authorization", f"Bearer {token}")
