"""Pure domain logic: money, periods, commission scales, finance formulas."""
