"""小说批量翻译任务服务"""
