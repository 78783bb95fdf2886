"""Gmail gateway, paging, aggregation and bulk mutation services."""
