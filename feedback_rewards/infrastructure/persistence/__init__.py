from .database import Database, init_database, generate_voucher_code

__all__ = ["Database", "init_database", "generate_voucher_code"]
