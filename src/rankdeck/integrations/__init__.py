# Provider API clients that run on top of a stored OAuth connection.
