"""fleetdesk - conversational operations desk for fleet and logistics businesses

This service runs the messaging side of the platform:
- Receives inbound channel messages (text, voice notes, media)
- Resolves the sender to an organization
- Drives registration and data-entry wizards
- Lets the reasoning service query and update routes, drivers, vehicles, clients and invoices
- Sends proactive alerts to organizations
"""

__version__ = "1.0.0"
