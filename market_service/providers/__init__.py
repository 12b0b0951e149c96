"""
行情数据提供商
  finnhub     – 报价 / 搜索 / 公司资料
  twelve_data – 日线历史 / 报价
  polygon     – 兜底
  sample      – 确定性样例数据（USE_MOCK_DATA）
"""
