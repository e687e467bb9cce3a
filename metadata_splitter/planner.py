"""Harvest-then-balance pipeline."""

import logging
import threading
from typing import Optional

from .balancer import SplitPlan, balance_splits
from .config import HarvestConfig
from .db import SplitPlanStore
from .harvester import HarvestResult, harvest

logger = logging.getLogger(__name__)


def plan_splits(
    config: HarvestConfig,
    store: Optional[SplitPlanStore] = None,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = False
) -> tuple[HarvestResult, SplitPlan]:
    """
    Harvest the configured roots and balance the entries into splits.

    The plan is only built, and only written to ``store``, once the harvest
    has fully completed; a failed or cancelled harvest leaves no splits
    behind.
    """
    # Phase 1: harvest
    result = harvest(
        config.source_paths,
        config.recursive,
        config.connection,
        config.credentials(),
        cancel_event=cancel_event,
        progress=progress
    )

    # Phase 2: balance
    plan = balance_splits(result.entries, config.max_per_split)
    logger.info(
        "Planned %d splits for %d entries (max %d per split)",
        plan.num_splits, len(result.entries), config.max_per_split
    )

    # Phase 3: publish
    if store is not None:
        store.save_plan(plan, config.max_per_split)

    return result, plan
