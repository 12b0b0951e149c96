"""
AI 分析服务
  on_device – 本地规则引擎（离线）
  gemini    – Gemini 云端模型
  mock      – 确定性模拟分析
"""
