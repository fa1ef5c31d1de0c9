"""
Matrix integration components package.

This package contains modular components for the Matrix integration:
- auth: Password login and client creation
- events: Timeline event dispatch with filtered subscriptions
- rooms: Membership, members, encryption flag and power levels
- room_ops: Invites, joins and room creation
- messages: Message envelopes and sending
- encryption: Key requests for undecryptable events
"""
