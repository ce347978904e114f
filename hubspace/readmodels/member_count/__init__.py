"""Hub member-count read model: fed by membership change events."""

from hubspace.readmodels.member_count.aggregator import (  # noqa: F401
    MEMBER_COUNT_CONTRACT,
    AggregationReport,
    AggregatorConfig,
    CountAggregator,
    build_member_count_aggregator,
)
from hubspace.readmodels.member_count.ledger import (  # noqa: F401
    InMemoryAppliedEventLedger,
    SqlAppliedEventLedger,
)
from hubspace.readmodels.member_count.reconcile import reconcile_member_counts  # noqa: F401
