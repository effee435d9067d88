"""Pure calculation helpers with no database access."""
