"""软删除异常类

定义软删除（paranoid）扩展相关的异常层次结构
"""


class ParanoidError(Exception):
    """软删除错误基类

    所有软删除相关的异常都继承自此类
    """
    pass


class MarkerPolicyError(ParanoidError):
    """删除标记策略错误

    标记字段名为空，或"已删除"与"未删除"取值相同时抛出。
    取值相同会让默认过滤条件失去区分能力。
    """

    def __init__(self, message: str = "删除标记策略配置无效"):
        super().__init__(message)


class ParanoidConfigurationError(ParanoidError):
    """软删除模型配置错误

    在模型注册（mapper 配置完成）时检测，例如：
    - 模型上不存在标记字段
    - 复合主键
    - 显式声明级联恢复的关系指向了不支持软删除的模型
    """

    def __init__(self, model_name: str, message: str):
        self.model_name = model_name
        super().__init__(f"{model_name}: {message}")


class UnknownOperationError(ParanoidError, AttributeError):
    """未知的派生查询操作

    请求的 ``*_with_destroyed`` / ``*_destroyed_only`` 名称没有对应的基础读操作。
    同时继承 AttributeError，与普通属性查找失败的处理方式一致。
    """

    def __init__(self, model_name: str, operation_name: str):
        self.model_name = model_name
        self.operation_name = operation_name
        super().__init__(f"{model_name} 不支持操作 '{operation_name}'")

    def __repr__(self) -> str:
        return f"UnknownOperationError(model_name={self.model_name!r}, operation_name={self.operation_name!r})"
