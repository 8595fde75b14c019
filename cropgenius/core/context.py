import contextvars

# Current farmer's user id, set by the auth dependency
# Lets log records emitted deep inside a service reach that farmer's live feed
user_id_var = contextvars.ContextVar("user_id", default=None)
