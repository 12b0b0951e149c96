"""
行情聚合与分析服务
独立的行情数据微服务，提供 HTTP 接口

架构分层：
  数据获取层 (Acquisition)  → 多数据提供商按序降级（Finnhub / Twelve Data / Polygon）
  缓存层     (Cache)        → 持久化缓存网关（报价 / K 线 / AI 分析，各自独立有效期）
  处理层     (Processing)   → K 线清洗、排序、去重
  分析层     (Indicators / Levels) → 技术指标与支撑阻力位计算
  AI 层      (AI)           → 本地 / 云端 / 模拟分析后端，由编排器统一调度
"""

__version__ = "1.0.0"
