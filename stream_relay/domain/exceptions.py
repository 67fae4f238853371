"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
由 RelayOrchestrator 在边界处统一捕获并转换为诊断事件。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "EMPTY_MESSAGE"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、status_code 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """请求内容校验失败（例如消息为空），不会访问上游。"""


class ConfigurationError(BusinessError):
    """运行配置缺失或无效（例如未设置 API 密钥）。"""


class UpstreamRejection(BusinessError):
    """上游返回非 2xx 状态码。不重试。"""


class UpstreamStreamFailure(BusinessError):
    """流式读取/解码过程中的失败（非主动取消）。"""


class RelayCancelled(Exception):
    """中继被主动取消（客户端断开、取消订阅或超时）。

    这是取消与失败之间唯一的判别依据：只有这个异常会被归类为
    Cancelled，且不会产生任何诊断事件。它不继承 BusinessError。
    """

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(reason)
