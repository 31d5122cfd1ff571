"""Delivery bounded context — Multi-vendor order coordination and courier dispatch.

Aggregates vendor sub-order progress into the customer-facing order status,
publishes "order ready" events once per transition, assigns the nearest
available delivery worker, and applies scheduled "start delivery"
transitions through a durable sweep that survives process restarts.
"""

from protean.domain import Domain

# Domain Composition Root
delivery = Domain(name="delivery")
