"""
Billing package - checkout orchestration, webhook processing and usage metering.

This package integrates with:
- Stripe: direct payment processing
- Janua: federated billing broker (Conekta for Mexico, Polar elsewhere) and
  the identity system that receives role and tier changes

Daily usage metering against tier caps is handled locally by UsageMeter.
"""
