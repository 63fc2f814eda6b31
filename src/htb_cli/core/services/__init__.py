"""Services: resolution, account probing, routing, provisioning, aggregation, submission."""
