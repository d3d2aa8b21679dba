"""
Salon Booking Domain

Conversation-driven booking for beauty salons on top of the YClients CRM.
"""
