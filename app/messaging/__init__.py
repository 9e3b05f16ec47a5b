"""
Messaging app: applications, numbered chats and messages.

Modules:
    models: Application, Chat, Message
    repositories: ORM access and per-parent sequencing
    services: Request-path orchestration (cache, queue, search)
    aggregator: Batch counter aggregation
    queues: Durable kombu queues feeding the aggregator
    counters: Redis counter cache
    caching: Redis response cache
    search: Elasticsearch message index
    tasks: Celery tasks (aggregation, indexing)
"""
