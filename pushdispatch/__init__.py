# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""pushdispatch - asynchronous push notification dispatch pipeline.

Delivers timetable, custom and announcement notifications to iOS (APNs)
and Android (FCM) devices through Dramatiq job queues.
"""

__version__ = "0.1.0"
