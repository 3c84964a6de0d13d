"""统一异常体系

所有业务异常继承 DepotError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出 "[code] message" 形式的友好提示。

冲突 (conflict) 与无解 (failure) 不以异常表示：它们是解析器给出的
动作类型，由更新循环汇总进 UpdateReport 后终止本轮。
"""

from __future__ import annotations


class DepotError(Exception):
    """包管理基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(DepotError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(DepotError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class PackageNotFoundError(DepotError):
    """没有供应源能描述该包，或没有已安装版本匹配删除请求"""

    code = "NOT_FOUND"


class AmbiguousPackageError(DepotError):
    """未指定版本的删除请求匹配到多个已安装版本"""

    code = "AMBIGUOUS"

    def __init__(self, message: str, versions: list[str] | None = None) -> None:
        super().__init__(message)
        self.versions = versions or []


class DownloadError(DepotError):
    """包归档下载失败"""

    code = "DOWNLOAD_ERROR"


class InstallError(DepotError):
    """包归档解压或注册失败"""

    code = "INSTALL_ERROR"


class RemovalError(DepotError):
    """已安装包删除失败"""

    code = "REMOVAL_ERROR"
