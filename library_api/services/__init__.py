"""
Library API — Services Layer
==============================

Service Inventory:
    - CategoryIntegrityMaintainer: book_count recounts and guarded category delete
    - CategoryService: category CRUD
    - BookService: book CRUD; triggers recounts after each write
"""
