import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from backend.core.logging import log
from backend.core.trove_core.config import ConfigError, TroveConfig

DEFAULT_RPC_FALLBACKS = ["https://api.devnet.solana.com"]


def load_endpoints(cfg: TroveConfig) -> List[str]:
    endpoints: List[str] = []
    seen = set()

    def add(u: str):
        if u and u not in seen:
            seen.add(u); endpoints.append(u)

    add(cfg.rpc_url.strip())
    for e in cfg.rpc_list: add(e)
    for f in DEFAULT_RPC_FALLBACKS: add(f)
    if not endpoints:
        raise ConfigError("No RPC endpoint configured (TROVE_RPC_URL)")
    log.debug(f"RPC endpoints in order: {endpoints}", source="rpc")
    return endpoints


def new_client(url: str, commitment: Optional[str] = None) -> AsyncClient:
    return AsyncClient(url, commitment=Commitment(commitment) if commitment else None)


def is_rate_limit(exc: Exception) -> bool:
    s = repr(exc)
    low = s.lower()
    return ("429" in s) or ("too many requests" in low) or ("rate limit" in low) or ("rate-limit" in low)


def _retryable(exc: Exception) -> bool:
    return is_rate_limit(exc) or isinstance(exc, SolanaRpcException)


async def call_with_backoff(op: Callable[[], Awaitable[Any]],
                            attempts: int = 4,
                            sleep_base: float = 0.35,
                            label: str = "rpc") -> Any:
    """Await ``op()``; retry rate-limited or transport failures with exponential sleep."""
    last_exc: Optional[Exception] = None
    for att in range(attempts):
        try:
            return await op()
        except Exception as e:
            if not _retryable(e):
                raise
            last_exc = e
            log.warning(f"{label} error {e!r} (attempt {att+1}/{attempts})", source="rpc")
            if att + 1 < attempts:
                await asyncio.sleep(sleep_base * (2 ** att))
    raise last_exc if last_exc else RuntimeError(f"{label} failed")


async def rpc_call_with_rotation(op_factory: Callable[[str], Awaitable[Any]],
                                 endpoints: List[str],
                                 start_idx: int = 0,
                                 attempts_per_endpoint: int = 2,
                                 sleep_base: float = 0.35) -> Tuple[int, Any]:
    """Run ``op_factory(url)`` against each endpoint in turn until one succeeds.

    Rate limits and transport errors are retried on the same endpoint first;
    anything else rotates to the next one immediately.
    """
    if not endpoints:
        raise ConfigError("No RPC endpoints")
    n = len(endpoints); idx = start_idx % n; last_exc: Optional[Exception] = None
    for _ in range(n):
        url = endpoints[idx]
        for att in range(attempts_per_endpoint):
            try:
                return idx, await op_factory(url)
            except Exception as e:
                last_exc = e
                if _retryable(e):
                    log.warning(f"RPC @ {url} error {e!r} (attempt {att+1}/{attempts_per_endpoint})", source="rpc")
                    await asyncio.sleep(sleep_base * (2 ** att))
                    continue
                log.warning(f"RPC @ {url} error {e!r}; rotating", source="rpc")
                break
        idx = (idx + 1) % n
    raise last_exc if last_exc else RuntimeError("RPC rotation failed")


async def connect(cfg: TroveConfig, attempts_per_endpoint: int = 2, sleep_base: float = 0.35) -> AsyncClient:
    """Return a client for the first healthy endpoint of :func:`load_endpoints`."""

    async def _open(url: str) -> AsyncClient:
        client = new_client(url, cfg.commitment)
        if await client.is_connected():
            return client
        await client.close()
        raise ConnectionError(f"RPC endpoint unreachable: {url}")

    idx, client = await rpc_call_with_rotation(
        _open, load_endpoints(cfg), attempts_per_endpoint=attempts_per_endpoint, sleep_base=sleep_base
    )
    log.info(f"connected to RPC endpoint #{idx}", source="rpc")
    return client


__all__ = [
    "DEFAULT_RPC_FALLBACKS",
    "load_endpoints",
    "new_client",
    "is_rate_limit",
    "call_with_backoff",
    "rpc_call_with_rotation",
    "connect",
]
