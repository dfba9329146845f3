"""
Driver requirement calculation.

DIY:           every unit travels with its own driver.
FULL_SERVICE:  a mover crew handles the first unit; each extra unit needs a
               driver. Without a mover the plan falls back to one driver per unit.

driversNeeded(FULL_SERVICE, n, mover) <= driversNeeded(FULL_SERVICE, n, no mover)
                                      <= driversNeeded(DIY, n)
"""

from .types import DriverRequirement, PlanType

# Units covered by the mover crew on a FULL_SERVICE job
MOVER_COVERED_UNITS = 1


def calculate_driver_requirement(
    plan_type: PlanType,
    unit_count: int,
    mover_available: bool = False,
) -> DriverRequirement:
    """Number of drivers a job needs. Pure and deterministic."""
    if unit_count < 0:
        raise ValueError(f"unit_count must not be negative, got {unit_count}")

    plan_type = PlanType(plan_type)

    if plan_type is PlanType.DIY:
        return DriverRequirement(drivers_needed=unit_count, reason="diy_all_units")

    if not mover_available:
        return DriverRequirement(drivers_needed=unit_count, reason="full_service_no_mover")

    extra_units = max(0, unit_count - MOVER_COVERED_UNITS)
    return DriverRequirement(drivers_needed=extra_units, reason="full_service_extra_units")


def required_movers(plan_type: PlanType) -> int:
    """Movers a job needs: one crew for FULL_SERVICE, none for DIY."""
    return 1 if PlanType(plan_type) is PlanType.FULL_SERVICE else 0
