"""Ledger outbox forwarder.

Delivers pending credit/debit instructions to the core banking ledger.
Instructions are written in the same transaction as the deposit status
change; this worker only forwards them, so a ledger outage delays credits
but never loses or duplicates them. The ledger deduplicates on
``idempotency_key``.

Usage:
    python -m depositflow.services.outbox --interval 30
    python -m depositflow.services.outbox --once
"""

import argparse
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from depositflow.config import get_settings
from depositflow.ledger.database import get_db, init_db
from depositflow.ledger.models import InstructionStatus, LedgerInstruction
from depositflow.ledger.repository import DepositRepository

logger = logging.getLogger(__name__)


def instruction_payload(instruction: LedgerInstruction) -> dict[str, Any]:
    """Wire format understood by the core ledger."""
    return {
        "idempotency_key": f"deposit-{instruction.deposit_id}-{instruction.kind}",
        "instruction_id": instruction.id,
        "deposit_id": instruction.deposit_id,
        "account_id": instruction.account_id,
        "kind": instruction.kind,
        "amount": str(instruction.amount),
        "currency": instruction.currency,
    }


@dataclass
class ForwardStats:
    dispatched: int = 0
    failed: int = 0


class LedgerOutboxForwarder:
    """Forward pending ledger instructions over HTTP."""

    def __init__(
        self,
        ledger_url: Optional[str] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        client: Optional[httpx.AsyncClient] = None,
        batch_size: int = 50,
        interval: Optional[int] = None,
    ):
        settings = get_settings()
        self.ledger_url = ledger_url or settings.ledger_webhook_url
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.interval = interval or settings.outbox_interval
        self._client = client
        self._timeout = settings.http_timeout
        self._running = False

    async def forward_once(self) -> ForwardStats:
        """Forward one batch of pending instructions.

        No transaction is open while a request is in flight. Pending
        instructions are read in one short session and each delivery
        result is committed in its own session, so an accepted instruction
        stays marked even if a later one fails.

        Returns:
            Counts of delivered and failed instructions
        """
        stats = ForwardStats()
        if not self.ledger_url:
            logger.warning("Ledger webhook URL not configured - instructions stay pending")
            return stats

        async with get_db(self.session_factory) as session:
            pending = await DepositRepository(session).get_instructions(
                status=InstructionStatus.PENDING, limit=self.batch_size
            )
            payloads = [instruction_payload(i) for i in pending]

        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            for payload in payloads:
                error = await self._deliver(client, payload)
                if await self._record(payload["instruction_id"], error):
                    if error is None:
                        stats.dispatched += 1
                    else:
                        stats.failed += 1
        finally:
            if self._client is None:
                await client.aclose()

        if stats.dispatched or stats.failed:
            logger.info(
                f"Outbox cycle: {stats.dispatched} dispatched, {stats.failed} failed"
            )
        return stats

    async def _deliver(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> Optional[str]:
        """POST one instruction. Returns None on success, else the error."""
        try:
            response = await client.post(self.ledger_url, json=payload)
            response.raise_for_status()
            logger.info(
                f"Ledger accepted {payload['kind']} of {payload['amount']} {payload['currency']} "
                f"for deposit {payload['deposit_id']}"
            )
            return None
        except httpx.HTTPStatusError as e:
            error = f"HTTP {e.response.status_code}"
        except httpx.HTTPError as e:
            error = f"{type(e).__name__}: {e}"

        logger.error(
            f"Ledger rejected instruction {payload['instruction_id']} "
            f"(deposit {payload['deposit_id']}): {error}"
        )
        return error

    async def _record(self, instruction_id: int, error: Optional[str]) -> bool:
        """Commit the outcome of one delivery attempt."""
        async with get_db(self.session_factory) as session:
            repo = DepositRepository(session)
            instruction = await repo.get_instruction_by_id(instruction_id)
            if instruction is None or instruction.status != InstructionStatus.PENDING.value:
                # Another forwarder got there first
                return False
            if error is None:
                await repo.mark_instruction_dispatched(instruction)
            else:
                await repo.record_instruction_failure(instruction, error)
        return True

    async def run(self) -> None:
        """Run the forwarding loop until stopped."""
        logger.info(f"Starting ledger outbox forwarder (interval: {self.interval}s)")
        self._running = True

        while self._running:
            try:
                await self.forward_once()
            except Exception as e:
                logger.error(f"Outbox forwarder error: {e}")

            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        self._running = False


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Forward ledger instructions")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between cycles (default: OUTBOX_INTERVAL setting)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run once and exit",
    )
    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    await init_db()
    forwarder = LedgerOutboxForwarder(interval=args.interval)

    if args.once:
        stats = await forwarder.forward_once()
        print(f"Dispatched {stats.dispatched}, failed {stats.failed}")
    else:
        await forwarder.run()


if __name__ == "__main__":
    asyncio.run(main())
