import chat.models
import django.contrib.auth.models
import django.contrib.auth.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('username', models.CharField(error_messages={'unique': 'A user with that username already exists.'}, help_text='Required. 150 characters or fewer. Letters, digits and @/./+/-/_ only.', max_length=150, unique=True, validators=[django.contrib.auth.validators.UnicodeUsernameValidator()], verbose_name='username')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('token_identifier', models.CharField(blank=True, help_text="Identity provider key: '<issuer>|<subject>'", max_length=255, null=True, unique=True)),
                ('name', models.CharField(blank=True, help_text='Display name', max_length=255)),
                ('image', models.URLField(blank=True, help_text='Avatar URL', max_length=500)),
                ('is_online', models.BooleanField(default=False, help_text='True while the user has an active session')),
                ('last_seen', models.DateTimeField(blank=True, default=django.utils.timezone.now, help_text='Last activity timestamp', null=True)),
                ('role', models.CharField(choices=[('common', 'Common'), ('admin', 'Admin')], default='common', help_text='Application role', max_length=10)),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'user',
                'verbose_name_plural': 'users',
                'abstract': False,
            },
            managers=[
                ('objects', django.contrib.auth.models.UserManager()),
            ],
        ),
        migrations.CreateModel(
            name='Conversation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('is_group', models.BooleanField(default=False, help_text='True for group chats, False for DMs')),
                ('group_name', models.CharField(blank=True, help_text='Conversation name (required for groups)', max_length=255)),
                ('group_image', models.ImageField(blank=True, help_text='Group avatar image', null=True, upload_to='group_avatars/')),
                ('created_at', models.DateTimeField(auto_now_add=True, help_text='Creation timestamp')),
                ('participant_key', models.CharField(blank=True, db_index=True, help_text='Sorted, comma-joined participant ids', max_length=2000)),
                ('created_by', models.ForeignKey(blank=True, help_text='User who created this conversation', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_conversations', to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name='ConversationMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('joined_at', models.DateTimeField(auto_now_add=True, help_text='When user joined this conversation')),
                ('is_admin', models.BooleanField(default=False, help_text='Admin privileges in group conversation')),
                ('conversation', models.ForeignKey(help_text='Conversation this membership belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='members', to='chat.conversation')),
                ('user', models.ForeignKey(help_text='User who is a member', on_delete=django.db.models.deletion.CASCADE, related_name='conversation_memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'unique_together': {('conversation', 'user')},
            },
        ),
        migrations.AddField(
            model_name='conversation',
            name='participants',
            field=models.ManyToManyField(related_name='conversations', through='chat.ConversationMember', to=settings.AUTH_USER_MODEL),
        ),
        migrations.CreateModel(
            name='Message',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('message_type', models.CharField(choices=[('text', 'Text'), ('image', 'Image'), ('video', 'Video'), ('audio', 'Audio'), ('document', 'Document')], default='text', help_text='Type of payload carried by this message', max_length=10)),
                ('text', models.TextField(blank=True, help_text='Message text content')),
                ('media', models.FileField(blank=True, help_text='Uploaded media attachment', max_length=500, null=True, storage=chat.models.message_storage, upload_to='message_media/')),
                ('caption', models.TextField(blank=True, help_text='Caption for image, video or document')),
                ('gif_playback', models.BooleanField(default=False, help_text='Play video as a looping GIF')),
                ('mimetype', models.CharField(blank=True, help_text='Document MIME type', max_length=100)),
                ('file_name', models.CharField(blank=True, help_text='Original document file name', max_length=255)),
                ('file_size', models.PositiveBigIntegerField(blank=True, help_text='Document size in bytes', null=True)),
                ('title', models.CharField(blank=True, help_text='Document title', max_length=255)),
                ('page_count', models.PositiveIntegerField(blank=True, help_text='Document page count', null=True)),
                ('reply', models.JSONField(blank=True, help_text='Denormalised snapshot of the quoted message', null=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Message creation timestamp')),
                ('conversation', models.ForeignKey(help_text='Conversation this message belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='messages', to='chat.conversation')),
                ('sender', models.ForeignKey(blank=True, help_text='User who sent this message', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='sent_messages', to=settings.AUTH_USER_MODEL)),
                ('receivers', models.ManyToManyField(blank=True, help_text='Participants this message was delivered to', related_name='received_messages', to=settings.AUTH_USER_MODEL)),
                ('readers', models.ManyToManyField(blank=True, help_text='Users who have read this message', related_name='read_messages', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['conversation', 'created_at'], name='chat_msg_conv_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='PushSubscription',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('endpoint', models.CharField(help_text='Push service endpoint URL', max_length=500)),
                ('p256dh', models.CharField(max_length=255)),
                ('auth', models.CharField(max_length=255)),
                ('expiration_time', models.BigIntegerField(blank=True, help_text='Expiry in milliseconds since epoch, as sent by the browser', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='push_subscriptions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'unique_together': {('user', 'endpoint')},
            },
        ),
    ]
