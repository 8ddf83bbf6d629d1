"""
数据流分层架构
  Layer 1 – Upstream     : 上游请求、Transient 重试与错误归一化（providers 为各提供商实现）
  Layer 2 – Processing   : 原始载荷清洗与格式化
  Layer 3 – Coordinator  : 同一缓存键的并发请求合并
  Layer 4 – Cache        : 带 TTL 的键值缓存（内存 / Redis）
"""
