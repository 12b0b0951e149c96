"""
数据流分层架构
  Layer 1 – Acquisition  : 数据路由（Finnhub / Twelve Data / Polygon 回退链）
  Layer 2 – Cache        : 持久化缓存网关（报价 / K 线 / AI 分析）
  Layer 3 – Processing   : K 线清洗与标准化
  Layer 4 – Indicators   : 技术指标计算
            Levels       : 支撑 / 阻力位推导
"""
