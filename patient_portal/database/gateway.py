"""
Remote Data Gateway - key-path addressed CRUD + subscribe over the Firebase Realtime Database.

All paths are slash-delimited strings into one global namespace. The Admin SDK is
blocking, so every call runs in a worker thread. Failures surface as GatewayError;
nothing is retried here.
"""

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable, Dict, Optional

from firebase_admin import db

from ..core.exceptions import GatewayError, PortalError
from ..core.firebase_init import initialize_firebase, is_firebase_available

logger = logging.getLogger(__name__)


class Subscription:
    """
    Handle for a live subscription. Calling it (or `close()`) unsubscribes;
    closing twice is a no-op. Usable as a context manager so the listener is
    released when the consuming workflow ends.
    """

    def __init__(self, path: str, closer: Optional[Callable[[], None]] = None):
        self.path = path
        self._closer = closer
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def bind(self, closer: Callable[[], None]):
        self._closer = closer

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._closer is None:
            return
        try:
            self._closer()
        except Exception as e:
            logger.warning(f"[Gateway] Error closing subscription on {self.path}: {e}")

    def __call__(self):
        self.close()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def dispatch_change(
    subscription: Subscription,
    callback: Callable[[Any], Any],
    value: Any,
    loop: Optional[asyncio.AbstractEventLoop] = None,
):
    """
    Deliver a full value to a subscriber. When the subscription was opened from
    a running event loop the callback is run on that loop, so consumers only ever
    see changes from their own thread.
    """

    def _deliver():
        if subscription.closed:
            return
        try:
            result = callback(value)
            if inspect.isawaitable(result):
                asyncio.ensure_future(result)
        except Exception as e:
            logger.error(f"[Gateway] Subscriber callback failed for {subscription.path}: {e}", exc_info=True)

    if loop is None:
        _deliver()
        return
    try:
        loop.call_soon_threadsafe(_deliver)
    except RuntimeError:
        # Loop already closed; the consumer is gone
        logger.debug(f"[Gateway] Dropping change for {subscription.path}: event loop closed")


class RealtimeDatabaseGateway:
    """Path-addressed access to the hosted hierarchical document store"""

    def __init__(self):
        if not is_firebase_available():
            if not initialize_firebase():
                raise Exception("Firebase initialization failed - Realtime Database not available")

    def _ref(self, path: str):
        return db.reference(f"/{path.strip('/')}" if path else "/")

    async def _run(self, operation: str, path: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except PortalError:
            raise
        except Exception as e:
            logger.error(f"[Gateway] {operation} failed at {path}: {e}")
            raise GatewayError(path, operation, e) from e

    # ===== CRUD =====

    async def create(self, path: str, value: Dict[str, Any]) -> str:
        """Push a new child under `path` and return its generated key."""

        def _create():
            new_ref = self._ref(path).push(value)
            new_ref.update({'id': new_ref.key})
            return new_ref.key

        key = await self._run("create", path, _create)
        logger.debug(f"[Gateway] Created {path}/{key}")
        return key

    async def read(self, path: str) -> Optional[Any]:
        return await self._run("read", path, lambda: self._ref(path).get())

    async def set(self, path: str, value: Any) -> None:
        """Overwrite the whole node at `path`."""
        await self._run("set", path, lambda: self._ref(path).set(value))

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        """
        Merge `fields` into the node at `path`. Keys may be nested paths
        ("timestamps/updatedAt"); the whole mapping is applied as one write,
        and siblings not mentioned are left untouched.
        """
        if not fields:
            return
        await self._run("update", path, lambda: self._ref(path).update(fields))

    async def delete(self, path: str) -> None:
        await self._run("delete", path, lambda: self._ref(path).delete())

    async def list(self, path: str) -> Dict[str, Any]:
        value = await self.read(path)
        return dict(value) if isinstance(value, dict) else {}

    async def query_by_child(
        self,
        path: str,
        child_key: str,
        value: Any,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        def _query():
            query = self._ref(path).order_by_child(child_key).equal_to(value)
            if limit:
                query = query.limit_to_last(limit)
            return query.get() or {}

        result = await self._run("query", path, _query)
        return dict(result)

    async def transaction(self, path: str, fn: Callable[[Any], Any]) -> Any:
        """
        Atomic read-modify-write of a single node. `fn` receives the current value
        and returns the new one; raising from `fn` aborts without writing.
        """
        return await self._run("transaction", path, lambda: self._ref(path).transaction(fn))

    # ===== Subscriptions =====

    async def subscribe(self, path: str, on_change: Callable[[Any], Any]) -> Subscription:
        """
        Deliver the entire current value at `path` on every change anywhere beneath it.
        The first delivery happens as soon as the listener is attached.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        subscription = Subscription(path)
        ref = self._ref(path)

        def _listener(event):
            if subscription.closed:
                return
            try:
                value = ref.get()
            except Exception as e:
                logger.error(f"[Gateway] Re-read after change failed at {path}: {e}")
                return
            dispatch_change(subscription, on_change, value, loop)

        registration = await self._run("subscribe", path, lambda: ref.listen(_listener))
        subscription.bind(registration.close)
        logger.info(f"[Gateway] Subscribed to {path}")
        return subscription


# Singleton instance
_gateway = None

def get_gateway() -> RealtimeDatabaseGateway:
    """Get or create the gateway singleton"""
    global _gateway
    if _gateway is None:
        _gateway = RealtimeDatabaseGateway()
    return _gateway
