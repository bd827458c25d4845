"""请求模型公共基类"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    驼峰别名模型

    请求体字段使用 camelCase（organizationId、userRequest ...），同时接受 snake_case。
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
