"""项目内使用的自定义异常定义。"""


class ImageStudioError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageStudioError):
    """配置不合法时抛出。"""


class ImageLoadingError(ImageStudioError):
    """源图片无法解码。"""


class InvalidRegionError(ImageStudioError):
    """裁剪区域超出图像边界或尺寸非法。"""


class ImageWriteError(ImageStudioError):
    """输出目录创建、编码或写入失败。"""
