"""Centralized defaults for the allocation engine.

This module contains every tunable default used across the allocators,
the transfer planner and the metrics layer. None of these are fixed law:
they seed the fields of ``AllocationConfig`` and can be overridden per run.
"""

# ============================================================================
# FRESHNESS CONSTANTS
# ============================================================================

#: Ambient temperature (Celsius) assumed when none is supplied
DEFAULT_AVG_TEMP_C = 25.0

#: Temperature above which spoilage accelerates
TEMP_BASELINE_C = 20.0

#: Each 10 degrees above baseline adds this fraction to the decay rate
TEMP_FACTOR_PER_10C = 0.5

#: Delivered freshness below this (but above zero) counts as "at risk"
AT_RISK_FRESHNESS_PCT = 20.0


# ============================================================================
# TRAVEL CONSTANTS
# ============================================================================

#: Earth radius used by the great-circle distance
EARTH_RADIUS_KM = 6371.0

#: Average truck speed for travel-time estimates
DEFAULT_AVG_SPEED_KMH = 40.0

#: A rest break is taken after this many hours of driving
REST_BREAK_EVERY_HOURS = 4.0

#: Length of each rest break
REST_BREAK_HOURS = 0.5


# ============================================================================
# SCORED ALLOCATOR CONSTANTS
# ============================================================================

#: Strict tier: delivered freshness must be at least this
PREFERRED_MIN_DELIVERED_FRESHNESS_PCT = 55.0

#: Relaxed tier: delivered freshness must be at least this
RELAXED_MIN_DELIVERED_FRESHNESS_PCT = 25.0

#: Score multipliers applied when the strict tier is empty
RELAXED_TIER_PENALTY = 0.98
FALLBACK_TIER_PENALTY = 0.95

#: Soft radius; candidates inside it are preferred when they fulfil enough
MAX_PREFERRED_DISTANCE_KM = 250.0

#: Warehouses beyond this distance are never considered
HARD_MAX_DISTANCE_KM = 450.0

#: Decay constant of the exponential distance term
DISTANCE_DECAY_KM = 70.0

#: Size of the first evaluation wave (nearest warehouses)
TOP_K_WAREHOUSES = 12

#: Widen to every in-cap warehouse when the best fulfilment is below this
WIDEN_BELOW_FULFILLMENT = 0.95

#: Best in-cap candidate wins only if it fulfils at least this share
MIN_IN_CAP_FULFILLMENT = 0.60

#: Composite score weights
DISTANCE_WEIGHT = 0.10
FRESHNESS_WEIGHT = 0.45
EXPIRY_PRESSURE_WEIGHT = 0.05
FULFILLMENT_WEIGHT = 0.40

#: Expiry pressure = 1 / (1 + remaining_hours / EXPIRY_PRESSURE_SCALE_HOURS)
EXPIRY_PRESSURE_SCALE_HOURS = 24.0

#: Multiplier for demand sites in regions flagged as anomalous
ANOMALY_URGENCY_BOOST = 1.1


# ============================================================================
# TRANSFER PLANNER CONSTANTS
# ============================================================================

#: Capacity assumed for warehouses with a missing or invalid capacity
DEFAULT_WAREHOUSE_CAPACITY_KG = 10_000.0

TRANSFER_MAX_PAIRS = 5
TRANSFER_MIN_TRANSFER_KG = 200.0
TRANSFER_OVERSTOCK_RATIO = 0.8
TRANSFER_UNDERSTOCK_RATIO = 0.4
TRANSFER_TARGET_RATIO = 0.6
TRANSFER_MODE = "warehouse_to_warehouse"

#: Safety cap on periodic planner runs within one allocation
TRANSFER_CRON_MAX_RUNS = 250

#: Quantities this close to a batch's full quantity move the whole batch
QUANTITY_EPSILON = 1e-9


# ============================================================================
# EXTERNAL SERVICE CONSTANTS
# ============================================================================

DEFAULT_SERVICE_URL = "http://localhost:5050"
DEFAULT_SERVICE_TIMEOUT_S = 8.0
