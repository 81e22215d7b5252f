from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import Group
from django.utils.html import format_html
from django.urls import reverse
from .models import User, Conversation, ConversationMember, Message, PushSubscription

# ==================== ADMIN CLASSES ====================

@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'name', 'email', 'is_online', 'role', 'last_seen')
    list_filter = ('is_online', 'role', 'is_staff')
    search_fields = ('username', 'name', 'email', 'token_identifier')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Chat', {'fields': ('token_identifier', 'name', 'image', 'is_online', 'last_seen', 'role')}),
    )
    actions = ['mark_offline']

    def mark_offline(self, request, queryset):
        updated = queryset.update(is_online=False)
        self.message_user(request, f"{updated} users marked offline")
    mark_offline.short_description = "Mark selected users offline"


class ConversationMemberInline(admin.TabularInline):
    model = ConversationMember
    extra = 0
    raw_id_fields = ('user',)


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ('id', 'group_name', 'is_group', 'created_by', 'created_at', 'member_count')
    list_filter = ('is_group', 'created_at')
    search_fields = ('group_name', 'created_by__username')
    inlines = [ConversationMemberInline]

    def member_count(self, obj):
        return obj.members.count()
    member_count.short_description = 'Members'


@admin.register(ConversationMember)
class ConversationMemberAdmin(admin.ModelAdmin):
    list_display = ('id', 'conversation', 'user', 'joined_at', 'is_admin')
    list_filter = ('is_admin', 'joined_at')
    search_fields = ('conversation__group_name', 'user__username')


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'conversation', 'sender_link', 'message_type', 'created_at', 'content_short')
    list_filter = ('message_type', 'created_at')
    search_fields = ('text', 'caption', 'file_name', 'sender__username')
    raw_id_fields = ('conversation', 'sender')
    filter_horizontal = ('receivers', 'readers')

    def sender_link(self, obj):
        if obj.sender is None:
            return "(deleted user)"
        url = reverse("admin:chat_user_change", args=[obj.sender.id])
        return format_html('<a href="{}">{}</a>', url, obj.sender.username)
    sender_link.short_description = 'Sender'
    sender_link.admin_order_field = 'sender__username'

    def content_short(self, obj):
        preview = obj.preview()
        return preview[:50] + '...' if len(preview) > 50 else preview
    content_short.short_description = 'Content'


@admin.register(PushSubscription)
class PushSubscriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'endpoint', 'created_at')
    search_fields = ('user__username', 'endpoint')


# Unregister Django's default Group
admin.site.unregister(Group)

# Basic admin site configuration
admin.site.site_header = "Chat Admin"
admin.site.site_title = "Chat Admin Portal"
admin.site.index_title = "Welcome"
