"""depot - 源码包管理器的协调核心"""

__version__ = "0.1.0"
