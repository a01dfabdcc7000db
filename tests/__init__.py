"""
Arcadia Rewards Test Suite
==========================

Test Organization
-----------------
- tests/unit/          : Fast unit tests with mocks (no database)
- tests/integration/   : Service tests against a per-test SQLite database

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test formulas and orchestration seams
- Integration tests: Exercise real transactions, savepoints and row versions
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
