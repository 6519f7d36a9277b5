"""
Library API — Routes Package
==============================

Route Inventory:
    - health.py:      GET /, GET /health
    - categories.py:  POST/GET /api/categories, GET/PUT/DELETE /api/categories/{id}
    - books.py:       POST/GET /api/books, GET/PUT/DELETE /api/books/{id}

Routes stay thin: extract request data, call a service, shape the response.
"""
