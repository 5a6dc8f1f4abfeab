# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the food rescue workflow.

This package contains pure business rules: transition tables, urgency,
match scoring and side-effect planning. Nothing here performs I/O.
"""
