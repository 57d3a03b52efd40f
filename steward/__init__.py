"""
steward: organization lifecycle and access control.

Permission policy, session revocation, data export, the deletion lifecycle with its
grace period, and ownership transfer, over versioned repositories.
"""
