"""
Event gateway router.

Consumes repository change events from a durable subscription and routes
them: content events go to in-process handlers (scoped to a parent folder or
general), folder events are forwarded to an AWS Lambda function.

Modules:
    endpoint_resolver - Topic endpoint discovery with fixed backoff and fallback
    serialization     - Event wire format (JSON)
    predicates        - Node type and ancestor predicates
    routing           - Filter -> branch -> filter pipeline
    handlers          - Handler registry and content handlers
    forwarder         - AWS Lambda forwarding
    consumer          - Durable subscription consumer
    runner            - Startup barrier, worker pool, shutdown
"""

__version__ = "0.1.0"
