"""
Service layer.

Each service encapsulates the business logic of one area and talks to
the spreadsheet only through a ``RowStore``, so API handlers stay thin
and the services can be tested against an in-memory sheet.
"""
