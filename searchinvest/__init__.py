"""
SearchInvest 金融数据网关
将多个第三方金融数据提供商（实时行情、公司基本面、技术/基本面分析、新闻情绪）
统一收敛到一个内部 API 之后，屏蔽上游延迟、限流与局部故障。

架构分层：
  上游客户端层 (Upstream)    → 各数据提供商的请求、重试与错误归一化
  请求协调层   (Coordinator) → 同一缓存键的并发请求合并（single-flight）
  缓存层       (Cache)       → 带 TTL 的键值缓存（内存 / Redis）
  领域服务层   (Services)    → 行情 / 公司 / 分析 / 情绪，负责组合上述各层并降级
"""

__version__ = "1.0.0"
