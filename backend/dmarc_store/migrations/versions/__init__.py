from . import up_null, up01, up10, up20, up30, up31, up32

# One transition per persisted version, in chain order.
STEPS = (up_null, up01, up10, up20, up30, up31, up32)
