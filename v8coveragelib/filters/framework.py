"""Filter framework orchestrator."""

import logging
from typing import Dict, List, Optional

from pydantic import Field

from v8coveragelib.models import BaseObject, CoverageMap, ExclusionConfig
from .base import FilterPass

logger = logging.getLogger(__name__)


class CoverageFilter(BaseObject):
    """Runs registered filter passes over a coverage map, one pass after the other."""

    registered_passes: Dict[str, FilterPass] = Field(
        default_factory=dict,
        description="Dictionary of registered filter passes by name"
    )

    execution_order: List[str] = Field(
        default_factory=list,
        description="Order in which to execute the filter passes"
    )

    def register_pass(self, filter_pass: FilterPass, *, position: Optional[int] = None) -> None:
        """Register a new filter pass.

        Args:
            filter_pass: The filter pass instance to register
            position: Optional position in execution order (None for append)
        """
        logger.debug(f"Registering filter pass: {filter_pass.name}")
        self.registered_passes[filter_pass.name] = filter_pass

        if filter_pass.name in self.execution_order:
            self.execution_order.remove(filter_pass.name)

        if position is None:
            self.execution_order.append(filter_pass.name)
        else:
            self.execution_order.insert(position, filter_pass.name)

    def apply(self, coverage_map: CoverageMap, config: ExclusionConfig) -> CoverageMap:
        """Filter a coverage map through every enabled pass.

        Each pass only removes keys, so passes commute and applying the
        framework twice changes nothing. A pass that raises is logged and
        skipped: filtering never fails.
        """
        filtered = dict(coverage_map)
        for pass_name in self.execution_order:
            filter_pass = self.registered_passes[pass_name]
            if not filter_pass.enabled:
                logger.debug(f"Skipping disabled filter: {pass_name}")
                continue
            try:
                filtered = filter_pass.apply(filtered, config)
            except Exception as e:
                logger.error(f"Error applying filter {pass_name}: {e}", exc_info=True)

        removed = len(coverage_map) - len(filtered)
        if removed:
            logger.debug(f"Filtered {removed} of {len(coverage_map)} files from coverage")
        return filtered
