"""Queue operations REST API."""
