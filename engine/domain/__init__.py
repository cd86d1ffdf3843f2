# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the CODEMA council-governance engine.

This package contains pure business logic functions with no side effects:
quorum thresholds, mandate and absence classification, attendance streaks,
convocation planning and input validation.
"""
