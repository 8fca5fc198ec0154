"""Pure helpers: freshness policy, hot-boost rules and delay arithmetic."""
