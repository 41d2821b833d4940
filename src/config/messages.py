# src/config/messages.py - v1
"""User-visible texts and fixed LLM instructions.

Everything the bot says in a conversation lives here so the wording (and its
language) can change without touching pipeline code.
"""

from __future__ import annotations

DEFAULT_TRIGGER_PHRASES: tuple[str, ...] = ("整理 PDF", "分析合同")

# --- Staging ---
STAGED_ACK = (
    "✅ 文件 {file_name} 已接收并暂存。\n"
    "请在上传完所有需处理的文件后，回复“{trigger}”开始分析。"
)
STAGE_FAILED = "❌ 文件 {file_name} 暂存失败：{error}"
DOWNLOAD_FAILED = "❌ 下载文件失败。"

# --- Pipeline ---
RUN_STARTED = "⏳ 收到请求，正在提取当前对话中暂存的 PDF 并分析，请稍候..."
RUN_BUSY = "⏳ 当前对话已有分析任务在进行中，请等待其完成后再试。"
NOTHING_TO_PROCESS = (
    "❌ 在当前对话中没有找到任何待处理的 PDF 文件。请先直接向我发送 PDF 文件。"
)
RUN_SUCCEEDED = "✅ 处理成功！\n\n📁 已处理文件：{file_count} 份\n📄 分析报告：{document_url}"
RUN_FAILED = "❌ 处理失败：{error}"

# --- Output document ---
DOCUMENT_TITLE_PREFIX = "📄 分析报告: "
SUMMARY_UNAVAILABLE = "未能生成摘要。"

# --- Summarization instructions ---
SYSTEM_INSTRUCTION = (
    "你是一个专业的法律文件处理助手。请分析提供的文件并给出准确、专业的摘要和关键点提取，"
    "使用Markdown格式输出。"
)
USER_INSTRUCTION = (
    "请提取上述文件的关键信息，并生成一份简明扼要的摘要。"
    "如果有多个文件，请分别指出它们的核心内容，或综合给出分析。"
)
