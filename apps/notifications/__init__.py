"""Notifications app package.

Queues transactional messages raised by booking events and delivers
them through an ordered list of providers per channel. A job that no
provider could deliver is retried with exponential backoff and, after
the last attempt, dead-lettered with an alert to operations. Before
every attempt the job re-checks the booking, so a message that no
longer matches the booking's state is skipped instead of sent.
"""
