# Services package.
#
# Each module exposes async functions holding the business logic for one
# part of the Entry aggregate:
#
#   entry_service    — listing/search, slugs, views, likes, CRUD
#   comment_service  — comment add / list / authorised delete
#
# All service functions take an AsyncSession as their first argument so
# that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Failures are raised as ``heritage.exceptions``
# classes.
