# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the Gabinete lifecycle service.

This package contains pure business logic functions with no side effects:
SLA classification, workflow step rules, the event approval state machine
and calendar slot scoring.
"""
