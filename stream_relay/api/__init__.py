"""传输层：服务函数与 FastAPI 应用。"""
