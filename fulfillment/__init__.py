"""Conference ticket fulfillment service."""
