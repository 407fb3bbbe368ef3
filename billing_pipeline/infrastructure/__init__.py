"""Infrastructure adapters: SQL database, Redis, RabbitMQ."""
