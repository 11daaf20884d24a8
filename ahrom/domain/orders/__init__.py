"""Order lifecycle: creation, status transitions and archiving"""
