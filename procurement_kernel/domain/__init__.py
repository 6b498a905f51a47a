"""Pure domain values shared by engines, modules and services."""
