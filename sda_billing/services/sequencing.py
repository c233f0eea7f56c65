"""Insert a draft under a freshly allocated sequential id, retrying on collisions"""

import logging
import time
from typing import Callable

from sda_billing.domain.exceptions import DuplicateTransactionIdError, TransactionIdAllocationError
from sda_billing.domain.models import DraftTransaction
from sda_billing.domain.ports import TransactionIdAllocator, TransactionStore

logger = logging.getLogger(__name__)


def insert_with_sequential_id(
    allocator: TransactionIdAllocator,
    store: TransactionStore,
    organization_id: str,
    build: Callable[[str], DraftTransaction],
    max_retries: int = 5,
    backoff_base: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> DraftTransaction:
    """
    Allocate an id, build the draft with it and insert it.

    Retry strategy:
    - Only id collisions (DuplicateTransactionIdError) are retried
    - Exponential backoff: base, 2*base, 4*base ... between attempts
    - Gives up after max_retries attempts with TransactionIdAllocationError

    Any other store error propagates unchanged on the first attempt.
    """
    attempt = 0
    while True:
        transaction = build(allocator.allocate(organization_id))
        try:
            store.insert(transaction)
            return transaction
        except DuplicateTransactionIdError as e:
            attempt += 1
            logger.warning(
                "Transaction id collision",
                extra={"transaction_id": transaction.id, "attempt": attempt},
            )
            if attempt >= max_retries:
                raise TransactionIdAllocationError(
                    f"Could not allocate a free transaction id after {max_retries} attempts"
                ) from e
            sleep(backoff_base * (2 ** (attempt - 1)))
