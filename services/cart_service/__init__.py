"""Cart, totals and shipping quote service."""
