"""
Order Core
==========

The conversational order flow: a per-customer cart that survives across
stateless webhook deliveries and advances through ``CartStep``s based on
free-text Indonesian input.

Modules:
--------
- **phases**: the CartStep enum and step ordering
- **parsers**: pure intent, item and detail heuristics plus the completeness check
- **message_builder**: every customer-facing text the flow sends
- **state_machine**: OrderStateMachine, which ties the above to the cart store
  and the payment, messaging and notification adapters
"""

from .phases import CartStep
from .state_machine import OrderReply, OrderStateMachine

__all__ = ["CartStep", "OrderReply", "OrderStateMachine"]
