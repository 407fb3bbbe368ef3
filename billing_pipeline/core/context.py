# billing_pipeline/core/context.py

import contextvars

correlation_id_ctx = contextvars.ContextVar("correlation_id", default=None)
tenant_id_ctx = contextvars.ContextVar("tenant_id", default=None)
message_id_ctx = contextvars.ContextVar("message_id", default=None)
consumer_ctx = contextvars.ContextVar("consumer", default=None)
