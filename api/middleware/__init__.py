# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains the gateway identity decorator and the problem-detail
error handling for the food rescue workflow API.
"""
